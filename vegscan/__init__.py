"""vegscan: vegetarian/vegan classification of packaged-food ingredient labels."""

__version__ = "1.0.0"
