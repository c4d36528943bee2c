"""Campus token reward ledger service."""
