"""Migration tools from the legacy neuroblastoma biobank into XTENS."""
