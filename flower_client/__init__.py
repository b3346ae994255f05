"""
Interactive Flower - hand-driven generative visual.

This module runs on the machine with the webcam, tracks one hand with
MediaPipe, drives the SEED/GROW/BLOOM/DISPERSE lifecycle and renders it
with OpenCV. Phase changes are relayed as OSC through the OSC bridge.
"""

__version__ = "1.0.0"
