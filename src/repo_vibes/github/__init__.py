"""GitHub REST access: client, scheduler, payload parsing."""
