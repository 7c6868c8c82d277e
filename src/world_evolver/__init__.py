"""World Evolver - declarative graph-evolution engine for procedural world history."""

__version__ = "0.1.0"
