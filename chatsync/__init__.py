"""Client-side synchronization core for friends, groups and group messaging."""
