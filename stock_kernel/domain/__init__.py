"""Pure domain layer: value types, collaborator protocols, ledger fold, clock."""
