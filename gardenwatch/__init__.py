"""gardenwatch: watch subscriptions for Gardener cluster resources."""

__version__ = "0.1.0"
