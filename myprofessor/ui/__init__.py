"""Console front-ends."""
