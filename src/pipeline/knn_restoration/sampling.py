"""Random subset strategies used for deletion sampling and fold shuffling."""

from abc import ABC, abstractmethod

from numpy.random import default_rng


class SubsetSampler(ABC):
    """Abstract base class for sources of randomness.

    All samplers must implement:
    - sample(population, size): distinct items drawn without replacement
    - shuffle(items): a permuted copy of the items
    """

    @abstractmethod
    def sample(self, population, size):
        pass

    @abstractmethod
    def shuffle(self, items):
        pass


class RandomSubsetSampler(SubsetSampler):
    """Uniform sampling backed by a numpy Generator."""

    def __init__(self, rng=None, seed=None):
        if rng is not None:
            self.rng = rng
        else:
            self.rng = default_rng(seed)

    def sample(self, population, size):
        population = list(population)
        size = min(size, len(population))
        if size <= 0:
            return []
        indices = self.rng.choice(len(population), size=size, replace=False)
        return [population[i] for i in indices]

    def shuffle(self, items):
        items = list(items)
        return [items[i] for i in self.rng.permutation(len(items))]


def as_sampler(rng=None, seed=None):
    """Accept a sampler, a numpy Generator or nothing and return a sampler."""
    if isinstance(rng, SubsetSampler):
        return rng
    return RandomSubsetSampler(rng=rng, seed=seed)
