import numpy as np
import pytest
import torch

from torchsubst import Parameter
from torchsubst.evolution.datatype import BinaryDataType, NucleotideDataType
from torchsubst.evolution.empirical import EmpiricalCounts
from torchsubst.evolution.substitution_model import (
    EqualRatesSubstitutionModel,
    ReversibleSubstitutionModel,
)

FREQUENCIES = [0.479367, 0.172572, 0.140933, 0.207128]


@pytest.fixture
def nucleotide():
    return NucleotideDataType('dna')


@pytest.fixture
def binary():
    return BinaryDataType('binary')


@pytest.fixture
def jc69_model():
    return EqualRatesSubstitutionModel('jc', 4)


@pytest.fixture
def gtr_model():
    return ReversibleSubstitutionModel(
        'gtr',
        4,
        Parameter(
            'rates',
            torch.tensor(
                [0.060602, 0.402732, 0.028230, 0.047910, 0.407249, 0.053277],
                dtype=torch.float64,
            ),
        ),
        Parameter('pi', torch.tensor(FREQUENCIES, dtype=torch.float64)),
    )


@pytest.fixture
def hky_model():
    return ReversibleSubstitutionModel(
        'hky',
        4,
        Parameter('kappa', torch.tensor([1.0, 3.0], dtype=torch.float64)),
        Parameter('pi', torch.tensor(FREQUENCIES, dtype=torch.float64)),
        mapping=[0, 1, 0, 0, 1, 0],
        name='HKY',
    )


@pytest.fixture
def dna_counts():
    return EmpiricalCounts(
        np.array([40.0, 20.0, 25.0, 15.0]),
        np.array(
            [
                [30.0, 2.0, 6.0, 1.0],
                [2.0, 14.0, 1.0, 5.0],
                [7.0, 1.0, 18.0, 1.0],
                [1.0, 4.0, 1.0, 10.0],
            ]
        ),
    )
