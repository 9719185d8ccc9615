"""
handsfreectl: command line client for the handsfree transcription daemon.
"""
