"""Import orchestration and the command-line runner."""
