"""Pure domain rules: no sessions, no commits, no I/O."""
