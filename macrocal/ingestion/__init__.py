"""Agency collectors and upload preprocessors."""
