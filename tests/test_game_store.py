import sys
import os
import sqlite3
import tempfile
import unittest
from unittest.mock import patch

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from geostory.game_store import GameStore


class TestGameStore(unittest.TestCase):
    def setUp(self):
        self.tmp_dir = tempfile.TemporaryDirectory()
        self.store = GameStore(os.path.join(self.tmp_dir.name, "test.db"))
        self.owner = self.store.create_user_session("author@example.com")["user_id"]
        self.other = self.store.create_user_session("someone@example.com")["user_id"]
        self.game_id = self.store.create_game(self.owner)

    def tearDown(self):
        self.tmp_dir.cleanup()

    def test_sessions(self):
        first = self.store.create_user_session("Author@Example.com ")
        second = self.store.create_user_session("author@example.com")
        self.assertEqual(first["user_id"], self.owner)
        self.assertEqual(second["user_id"], self.owner)
        self.assertNotEqual(first["token"], second["token"])
        self.assertEqual(self.store.get_user_id_for_token(first["token"]), self.owner)
        self.assertIsNone(self.store.get_user_id_for_token("bogus"))

    def test_new_game_is_private_draft(self):
        game = self.store.get_game(self.game_id, self.owner)
        self.assertEqual(game["status"], "draft")
        self.assertEqual(game["visibility"], "private")
        self.assertEqual(game["title"], "")
        self.assertIsNone(game["location"])
        self.assertEqual(game["categories"], [])

    def test_other_user_cannot_see_or_change_game(self):
        self.assertIsNone(self.store.get_game(self.game_id, self.other))
        self.assertFalse(self.store.owns_game(self.game_id, self.other))
        self.assertFalse(self.store.update_general_info(self.game_id, self.other, {"title": "x", "description": "y"}))
        self.assertIsNone(self.store.add_character(self.game_id, self.other, {"name": "A", "category": "human"}))
        self.assertFalse(self.store.set_publication(self.game_id, self.other, "published", "public"))
        self.assertEqual(self.store.list_games(self.other), [])

    def test_update_general_info(self):
        updated = self.store.update_general_info(self.game_id, self.owner, {
            "title": "Old Town Mystery",
            "description": "Explore the old town",
            "location": {"lat": 48.2, "lng": 16.37},
            "cover_image_url": "",
            "categories": ["mystery"],
        })
        self.assertTrue(updated)
        game = self.store.get_game(self.game_id, self.owner)
        self.assertEqual(game["title"], "Old Town Mystery")
        self.assertEqual(game["location"], {"lat": 48.2, "lng": 16.37})
        self.assertIsNone(game["cover_image_url"])
        self.assertEqual(game["categories"], ["mystery"])

    def test_character_crud(self):
        character_id = self.store.add_character(self.game_id, self.owner, {
            "name": "Anna", "summary": "Baker", "image_url": None, "category": "human"})
        self.store.add_character(self.game_id, self.owner, {
            "name": "Raven", "summary": "Bird", "image_url": None, "category": "non-human"})
        names = [c["name"] for c in self.store.list_characters(self.game_id, self.owner)]
        self.assertEqual(names, ["Anna", "Raven"])

        self.assertTrue(self.store.update_character(self.game_id, self.owner, character_id, {
            "name": "Anna B.", "summary": "Baker", "image_url": None, "category": "human"}))
        self.assertFalse(self.store.update_character(self.game_id, self.other, character_id, {
            "name": "Hacked", "summary": "", "image_url": None, "category": "human"}))
        self.assertEqual(self.store.list_characters(self.game_id, self.owner)[0]["name"], "Anna B.")

        self.assertFalse(self.store.delete_character(self.game_id, self.other, character_id))
        self.assertTrue(self.store.delete_character(self.game_id, self.owner, character_id))
        self.assertFalse(self.store.delete_character(self.game_id, self.owner, character_id))
        self.assertEqual(len(self.store.list_characters(self.game_id, self.owner)), 1)

    def test_poi_and_card_lists(self):
        poi_id = self.store.add_poi(self.game_id, self.owner, {
            "name": "Clock Tower", "description": "Old tower", "contextual_data": "Built 1650",
            "image_url": None, "type": "landmark", "tags": ["tower", "history"],
            "latitude": 48.2, "longitude": 16.37})
        self.assertTrue(self.store.poi_in_game(self.game_id, self.owner, poi_id))
        self.assertFalse(self.store.poi_in_game(self.game_id, self.other, poi_id))
        self.assertEqual(self.store.list_pois(self.game_id, self.owner)[0]["tags"], ["tower", "history"])
        self.assertEqual(self.store.get_poi_for_owner(poi_id, self.owner)["name"], "Clock Tower")
        self.assertIsNone(self.store.get_poi_for_owner(poi_id, self.other))

        card_id = self.store.add_card(self.game_id, self.owner, {
            "title": "The Bell", "prompt": "Listen to the bell ring", "type": "sense",
            "hero_steps": ["call_to_adventure", "meeting_the_mentor"], "character_category": "both",
            "card_category": "poi_specific", "keywords": None, "poi_id": poi_id})
        card = self.store.list_cards(self.game_id, self.owner)[0]
        self.assertEqual(card["id"], card_id)
        self.assertEqual(card["hero_steps"], ["call_to_adventure", "meeting_the_mentor"])
        self.assertEqual(card["poi_id"], poi_id)

        # Deleting the POI detaches it from the card
        self.assertTrue(self.store.delete_poi(self.game_id, self.owner, poi_id))
        self.assertIsNone(self.store.list_cards(self.game_id, self.owner)[0]["poi_id"])

    def test_ai_config_upsert(self):
        self.assertIsNone(self.store.get_ai_config(self.game_id, self.owner))
        config = {"name": "Sage", "tone": "calm", "personality": "mentor", "relationship": "guide",
                  "humor_level": 0, "formality": 0, "system_prompt": "You are Sage"}
        self.assertTrue(self.store.save_ai_config(self.game_id, self.owner, config))
        self.assertTrue(self.store.save_ai_config(self.game_id, self.owner, {**config, "name": "Echo"}))
        saved = self.store.get_ai_config(self.game_id, self.owner)
        self.assertEqual(saved["name"], "Echo")
        self.assertEqual(saved["humor_level"], 0)
        self.assertFalse(self.store.save_ai_config(self.game_id, self.other, config))

    def test_publication_transitions(self):
        self.assertTrue(self.store.set_publication(self.game_id, self.owner, "published", "public"))
        game = self.store.get_game(self.game_id, self.owner)
        self.assertEqual((game["status"], game["visibility"]), ("published", "public"))
        self.assertTrue(self.store.set_publication(self.game_id, self.owner, "draft", "private"))
        game = self.store.get_game(self.game_id, self.owner)
        self.assertEqual((game["status"], game["visibility"]), ("draft", "private"))

    def test_snapshot(self):
        self.assertIsNone(self.store.load_snapshot(self.game_id, self.other))
        snapshot = self.store.load_snapshot(self.game_id, self.owner)
        self.assertEqual(snapshot["game"]["game_id"], self.game_id)
        self.assertEqual(snapshot["characters"], [])
        self.assertEqual(snapshot["pois"], [])
        self.assertEqual(snapshot["cards"], [])
        self.assertIsNone(snapshot["ai_config"])

    def test_snapshot_fetch_error_becomes_absent(self):
        with patch.object(self.store, "list_cards", side_effect=sqlite3.OperationalError("database is locked")):
            with self.assertLogs("geostory.game_store", level="ERROR"):
                snapshot = self.store.load_snapshot(self.game_id, self.owner)
        self.assertIsNone(snapshot["cards"])
        self.assertEqual(snapshot["characters"], [])


if __name__ == '__main__':
    unittest.main()
