"""Cloud inventory: accounts, adapters, stored instances and reconciliation."""
