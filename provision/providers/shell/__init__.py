"""Shell-backed providers: commands and the file system."""
