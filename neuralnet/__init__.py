"""
neuralnet package
~~~~~~~~~~~~~~~~~

From-scratch feedforward neural network engine.
Contains the vector/matrix primitives, the network with backpropagation
and mini-batch gradient descent, the binary model format and the
helpers that turn binary glyph images into training examples.
"""

__version__ = "1.0.0"
