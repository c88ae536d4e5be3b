"""
linalg.py
~~~~~~~~~

Dense vector and matrix types used by the network.

Both types wrap float64 numpy arrays and behave as values: every
operation validates its operands first and returns a new object,
leaving the operands untouched.
"""

import numbers
from typing import Any, Callable, Iterable, Iterator, Tuple, Union

import numpy as np

from neuralnet.errors import DimensionMismatch


ArrayFunction = Callable[[np.ndarray], np.ndarray]


class Vector:
    """Fixed-length sequence of reals with elementwise algebra."""

    __slots__ = ('_elements',)

    def __init__(self, elements: Union['Vector', Iterable[float], np.ndarray]):
        if isinstance(elements, Vector):
            elements = elements._elements
        array = np.array(elements, dtype=np.float64)
        if array.ndim != 1:
            raise DimensionMismatch(
                f"Vector elements must be one-dimensional, got shape {array.shape}"
            )
        self._elements = array

    @classmethod
    def zeros(cls, dimension: int) -> 'Vector':
        """Create a vector of ``dimension`` zeros."""
        return cls(np.zeros(dimension))

    @property
    def dimension(self) -> int:
        return self._elements.shape[0]

    def __len__(self) -> int:
        return self.dimension

    def __getitem__(self, index: int) -> float:
        return float(self._elements[index])

    def __setitem__(self, index: int, value: float) -> None:
        self._elements[index] = value

    def __iter__(self) -> Iterator[float]:
        return (float(value) for value in self._elements)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Vector):
            return NotImplemented
        return (
            self.dimension == other.dimension
            and bool(np.array_equal(self._elements, other._elements))
        )

    __hash__ = None  # mutable through item assignment

    def __repr__(self) -> str:
        return f"Vector({self._elements.tolist()})"

    def _check_dimension(self, other: 'Vector', operation: str) -> None:
        if not isinstance(other, Vector):
            raise TypeError(
                f"Cannot {operation} Vector and {type(other).__name__}"
            )
        if self.dimension != other.dimension:
            raise DimensionMismatch(
                f"Cannot {operation} vectors of dimension "
                f"{self.dimension} and {other.dimension}"
            )

    def __add__(self, other: 'Vector') -> 'Vector':
        self._check_dimension(other, 'add')
        return Vector(self._elements + other._elements)

    def __sub__(self, other: 'Vector') -> 'Vector':
        self._check_dimension(other, 'subtract')
        return Vector(self._elements - other._elements)

    def __neg__(self) -> 'Vector':
        return Vector(-self._elements)

    def __mul__(self, scalar: float) -> 'Vector':
        if not isinstance(scalar, numbers.Real):
            return NotImplemented
        return Vector(self._elements * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> 'Vector':
        if not isinstance(scalar, numbers.Real):
            return NotImplemented
        return Vector(self._elements / scalar)

    def hadamard(self, other: 'Vector') -> 'Vector':
        """Elementwise product of two vectors of equal dimension."""
        self._check_dimension(other, 'multiply elementwise')
        return Vector(self._elements * other._elements)

    def outer(self, other: 'Vector') -> 'Matrix':
        """
        Outer product ``self · otherᵀ``.

        Args:
            other: Vector of any dimension

        Returns:
            Matrix of shape (len(self), len(other))
        """
        if not isinstance(other, Vector):
            raise TypeError(
                f"Cannot take outer product with {type(other).__name__}"
            )
        return Matrix(np.outer(self._elements, other._elements))

    def map(self, function: ArrayFunction) -> 'Vector':
        """Apply an elementwise array function and return the result."""
        return Vector(function(self._elements))

    def argmax(self) -> int:
        """Index of the largest element; the first one wins ties."""
        if self.dimension == 0:
            raise DimensionMismatch("argmax of an empty vector")
        return int(np.argmax(self._elements))

    def squared_norm(self) -> float:
        return float(np.dot(self._elements, self._elements))

    def to_numpy(self) -> np.ndarray:
        """Return a copy of the elements as a numpy array."""
        return self._elements.copy()

    def tolist(self):
        return self._elements.tolist()


class Matrix:
    """Dense rows × columns array of reals."""

    __slots__ = ('_elements',)

    def __init__(self, rows: Union['Matrix', Iterable[Iterable[float]], np.ndarray]):
        if isinstance(rows, Matrix):
            rows = rows._elements
        try:
            array = np.array(rows, dtype=np.float64)
        except ValueError as e:
            raise DimensionMismatch(f"Matrix rows must have equal length: {e}")
        if array.ndim != 2:
            raise DimensionMismatch(
                f"Matrix elements must be two-dimensional, got shape {array.shape}"
            )
        self._elements = array

    @classmethod
    def zeros(cls, rows: int, columns: int) -> 'Matrix':
        """Create a rows × columns matrix of zeros."""
        return cls(np.zeros((rows, columns)))

    @property
    def shape(self) -> Tuple[int, int]:
        return self._elements.shape

    @property
    def rows(self) -> int:
        return self._elements.shape[0]

    @property
    def columns(self) -> int:
        return self._elements.shape[1]

    def __getitem__(self, index: Tuple[int, int]) -> float:
        row, column = index
        return float(self._elements[row, column])

    def __setitem__(self, index: Tuple[int, int], value: float) -> None:
        row, column = index
        self._elements[row, column] = value

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return (
            self.shape == other.shape
            and bool(np.array_equal(self._elements, other._elements))
        )

    __hash__ = None

    def __repr__(self) -> str:
        return f"Matrix({self._elements.tolist()})"

    def _check_shape(self, other: 'Matrix', operation: str) -> None:
        if not isinstance(other, Matrix):
            raise TypeError(
                f"Cannot {operation} Matrix and {type(other).__name__}"
            )
        if self.shape != other.shape:
            raise DimensionMismatch(
                f"Cannot {operation} matrices of shape "
                f"{self.shape} and {other.shape}"
            )

    def transpose(self) -> 'Matrix':
        return Matrix(self._elements.T)

    @property
    def T(self) -> 'Matrix':
        return self.transpose()

    def __add__(self, other: 'Matrix') -> 'Matrix':
        self._check_shape(other, 'add')
        return Matrix(self._elements + other._elements)

    def __sub__(self, other: 'Matrix') -> 'Matrix':
        self._check_shape(other, 'subtract')
        return Matrix(self._elements - other._elements)

    def __neg__(self) -> 'Matrix':
        return Matrix(-self._elements)

    def __mul__(self, scalar: float) -> 'Matrix':
        if not isinstance(scalar, numbers.Real):
            return NotImplemented
        return Matrix(self._elements * scalar)

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> 'Matrix':
        if not isinstance(scalar, numbers.Real):
            return NotImplemented
        return Matrix(self._elements / scalar)

    def hadamard(self, other: 'Matrix') -> 'Matrix':
        """Elementwise product of two matrices of equal shape."""
        self._check_shape(other, 'multiply elementwise')
        return Matrix(self._elements * other._elements)

    def __matmul__(self, other: Union['Matrix', Vector]) -> Union['Matrix', Vector]:
        """
        Matrix-matrix or matrix-vector product.

        Args:
            other: Matrix with ``other.rows == self.columns`` or Vector
                with ``len(other) == self.columns``

        Returns:
            Matrix or Vector, matching the type of ``other``

        Raises:
            DimensionMismatch: If the inner dimensions differ
        """
        if isinstance(other, Vector):
            if self.columns != other.dimension:
                raise DimensionMismatch(
                    f"Cannot multiply matrix of shape {self.shape} "
                    f"by vector of dimension {other.dimension}"
                )
            return Vector(self._elements @ other._elements)
        if isinstance(other, Matrix):
            if self.columns != other.rows:
                raise DimensionMismatch(
                    f"Cannot multiply matrices of shape "
                    f"{self.shape} and {other.shape}"
                )
            return Matrix(self._elements @ other._elements)
        return NotImplemented

    def map(self, function: ArrayFunction) -> 'Matrix':
        """Apply an elementwise array function and return the result."""
        return Matrix(function(self._elements))

    def to_numpy(self) -> np.ndarray:
        """Return a copy of the elements as a numpy array."""
        return self._elements.copy()

    def tolist(self):
        return self._elements.tolist()
