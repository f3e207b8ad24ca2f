"""Platform services built on the document store and flows."""
