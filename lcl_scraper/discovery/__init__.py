"""Source discovery: find, validate and register new agenda sites."""
