"""GeneHub: gene-data aggregation gateway over NCBI, UniProt, AlphaFold, PDB, STRING and BioCyc."""

__version__ = "2025.10"
