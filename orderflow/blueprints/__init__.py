"""HTTP blueprints (JSON API). Each package exposes its Blueprint object."""
