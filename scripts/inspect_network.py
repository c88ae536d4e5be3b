#!/usr/bin/env python3
"""
Print a summary of a saved network file.

Usage:
    python scripts/inspect_network.py models/network120.dat

The script will:
1. Load the network file
2. Print the activation function and layer sizes
3. Print parameter counts and weight/bias statistics per layer
"""

import os
import sys

import numpy as np

from neuralnet.errors import NeuralNetworkError
from neuralnet.model_persistence import load_network_file
from neuralnet.network import Network


def describe(network: Network) -> None:
    """
    Print the structure and parameter statistics of ``network``.

    Parameters:
    -----------
    network : Network
        Network loaded from a file
    """
    print(f"   - Activation: {network.activation.name}")
    print(f"   - Layer sizes: {network.sizes}")
    print(f"   - Parameters: {network.num_parameters()}")

    for i in range(1, network.num_layers):
        weights = network.weight_matrix(i).to_numpy()
        biases = network.biases(i).to_numpy()
        print(
            f"   - Layer {i}: weights {weights.shape[0]}x{weights.shape[1]} "
            f"(mean {weights.mean():+.4f}, std {weights.std():.4f}), "
            f"biases (mean {biases.mean():+.4f}, std {biases.std():.4f})"
        )
        if not np.all(np.isfinite(weights)) or not np.all(np.isfinite(biases)):
            print(f"   ⚠️  Layer {i} holds non-finite values")


def main():
    """Main inspection function."""
    if len(sys.argv) != 2:
        print("Usage: python scripts/inspect_network.py <network file>")
        sys.exit(2)

    filename = sys.argv[1]
    if not os.path.exists(filename):
        print(f"❌ Error: File not found: {filename}")
        sys.exit(1)

    print(f"📂 Loading network from: {filename}")
    try:
        network = load_network_file(filename)
    except (NeuralNetworkError, OSError) as e:
        print(f"❌ Error loading network: {e}")
        sys.exit(1)

    size_kb = os.path.getsize(filename) / 1024
    print(f"✅ Loaded successfully (size: {size_kb:.1f} KB)")
    describe(network)


if __name__ == '__main__':
    main()
