"""
Core habit engine: lifecycle transforms, chain resolution, clustering,
and the command reducer that ties them to the state holder.
"""
