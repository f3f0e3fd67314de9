"""Services implementing the block editing protocol."""
