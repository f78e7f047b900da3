"""
Dynamics Module

This module provides the force model, the driving control policy and the
fixed-step integrator of the train motion.
"""
