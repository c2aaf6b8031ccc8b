from genehub.clients.alphafold import AlphafoldAdapter
from genehub.clients.base import Adapter, Fragment, Upstream
from genehub.clients.biocyc import BiocycAdapter
from genehub.clients.ncbi import NcbiAdapter
from genehub.clients.pdb import PdbAdapter
from genehub.clients.string_db import StringAdapter
from genehub.clients.uniprot import UniprotAdapter

__all__ = [
    "Adapter",
    "AlphafoldAdapter",
    "BiocycAdapter",
    "Fragment",
    "NcbiAdapter",
    "PdbAdapter",
    "StringAdapter",
    "UniprotAdapter",
    "Upstream",
]
