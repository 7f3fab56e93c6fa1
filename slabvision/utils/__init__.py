"""Leaf-node image and geometry helpers. No engine imports."""
