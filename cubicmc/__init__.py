"""Main module for the CubicMC engine.

The engine resolves a game version's declarative metadata into a runnable local
installation: it fetches and verifies the artifacts referenced by version descriptors,
evaluates platform rules, extracts native libraries and assembles the launch command.
Most users will want to start with the operations of `cubicmc.standard`.
"""

LAUNCHER_NAME = "cubicmc"
LAUNCHER_VERSION = "1.0.0"
