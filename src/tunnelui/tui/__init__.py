"""Terminal UI: message loop, sub-models and the unified session."""
