"""UI state: navigation model and dashboard controller."""
