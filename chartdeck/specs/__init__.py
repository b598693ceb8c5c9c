"""Chart spec trees: typed nodes, a generic walker and dataset reference
resolution. Pure functions over in-memory trees; nothing here does I/O
except awaiting the dataset lookup handed to resolve_for_render().
"""
