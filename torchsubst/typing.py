from typing import Union

import numpy as np
import torch

ID = Union[str, None]
# 1-indexed vector of model parameters, element 0 is unused
Variables = np.ndarray
# flat (n*n) or square (n, n) output buffer
Buffer = Union[torch.Tensor, None]
