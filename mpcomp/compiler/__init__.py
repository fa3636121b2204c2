"""
Compiler module: Recognition factorization to executable steps.
"""

from mpcomp.compiler.extend import (
    Cluster,
    extend,
    external_edges,
    nodes_connected_to_external_edges,
    build_clusters,
)
from mpcomp.compiler.collider import connected_components, has_collider
from mpcomp.compiler.recognition_factor import RecognitionFactor
from mpcomp.compiler.factorization import factorize_mean_field, factorize_structured
from mpcomp.compiler.scheduler import (
    generate_schedule,
    generate_marginal_table,
    constrain,
)
from mpcomp.compiler.rules import PRODUCT_KIND, UpdateRule, RuleCatalogue
from mpcomp.compiler.resolver import Resolution, resolve, resolve_product
from mpcomp.compiler.assemble import assemble_algorithm
from mpcomp.compiler.emit import emit_step

__all__ = [
    # extend
    "Cluster",
    "extend",
    "external_edges",
    "nodes_connected_to_external_edges",
    "build_clusters",
    # collider
    "connected_components",
    "has_collider",
    # recognition factors
    "RecognitionFactor",
    "factorize_mean_field",
    "factorize_structured",
    # scheduler
    "generate_schedule",
    "generate_marginal_table",
    "constrain",
    # rules
    "PRODUCT_KIND",
    "UpdateRule",
    "RuleCatalogue",
    "Resolution",
    "resolve",
    "resolve_product",
    # assembly
    "assemble_algorithm",
    "emit_step",
]
