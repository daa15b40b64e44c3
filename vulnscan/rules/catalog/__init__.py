"""Built-in rule catalogue, one YAML file per vulnerability category."""
