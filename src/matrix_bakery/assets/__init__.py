"""Assets package init.

Assets are not re-exported here to keep import graphs explicit. Import them
from their concrete modules, for example:

    from matrix_bakery.assets.group_bake import bake_plan

Public entrypoints remain stable via the matrix_bakery.definitions module.
"""
