"""
Gesture Teleop - depth-camera hand tracking client for robot teleoperation.

This package runs next to an RGB-D camera, estimates the operator's palm
pose and gestures with MediaPipe, and streams tracking, gripper and reset
commands to a robot controller over TCP.
"""

__version__ = "1.0.0"
