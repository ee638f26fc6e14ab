"""flowledger command-line interface (typer + rich)."""
