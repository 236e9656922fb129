"""CSV and JSON writers for analysis results."""
