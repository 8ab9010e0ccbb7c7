"""GeoStory Studio: authoring backend for location-based storytelling games."""

__version__ = "0.1.0"
