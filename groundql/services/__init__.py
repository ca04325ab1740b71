"""Application services built on the GroundQL core."""
