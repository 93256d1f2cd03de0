"""Web API for the training system."""
