"""WebExtract: recover scraping workflows from language model output and run them."""

__version__ = "1.0.0"
