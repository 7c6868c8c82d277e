"""Probability helpers."""

import random


def scale_probability(probability: float, modifier: float = 1.0) -> float:
    """Scale a probability by raising its odds to ``modifier``.

    A modifier of 1 leaves the probability unchanged; above 1 pushes it
    towards the nearer extreme, below 1 pulls it towards 0.5. Certain and
    impossible outcomes stay that way.
    """
    if probability <= 0.0:
        return 0.0
    if probability >= 1.0:
        return 1.0
    if modifier == 1.0:
        return probability
    odds = probability / (1.0 - probability)
    scaled = odds**modifier
    return scaled / (1.0 + scaled)


def roll_probability(probability: float, rng: random.Random, modifier: float = 1.0) -> bool:
    p = scale_probability(probability, modifier)
    if p <= 0.0:
        return False
    if p >= 1.0:
        return True
    return rng.random() < p
