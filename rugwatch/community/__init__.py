"""Community records: rug-pull tombstones, insider tips and chat relay."""
