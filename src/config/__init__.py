"""Ficheros de configuración por defecto (config.yaml, rules.yaml)."""
