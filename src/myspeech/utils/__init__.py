"""
Utility Modules for myspeech.

    - audio.py: WAV encoding, header parsing, duration probing
    - timeit.py: Performance measurement
"""
