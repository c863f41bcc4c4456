"""A sample application declaring one scope of every category."""
