"""Helper utilities: environment, terminal output, YAML and SQL Server access."""
