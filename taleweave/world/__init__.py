"""World info and encounter resolution."""
