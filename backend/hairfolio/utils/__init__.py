"""Small pure helpers shared by services."""
