"""EMR-side adapters: patient storage and program-specific indicator libraries."""
