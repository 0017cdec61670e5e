"""Local language providers: symbol outlines and syntax diagnostics."""
