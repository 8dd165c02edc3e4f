"""External data sources consulted while curating occurrences."""
