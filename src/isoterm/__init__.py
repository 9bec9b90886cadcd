"""
isoterm - bootstrap an isolated shell toolchain.

Fetches fish, starship, zoxide, atuin, ripgrep and helix (or links the system
copies) into a self-contained directory with its own activation script.
"""
