"""Service layer: external adapters and the identification cascade."""
