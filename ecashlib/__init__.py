# The ecashlib version
VERSION = '0.1.0'


__all__ = ["aggregation", "bp", "coin_indices", "errors", "expiration", "identify",
           "keygen", "pack", "parallel", "params", "payment", "proofs", "secret",
           "utils", "wallet", "withdrawal"]

def run_tests():
    # These are only needed in case we test
    import pytest
    import os.path
    import glob

    # List all ecashlib files in the directory
    ecashlib_dir = os.path.dirname(os.path.realpath(__file__))
    pyfiles = sorted(glob.glob(os.path.join(ecashlib_dir, '*.py')))

    # Run the test suite
    print("Directory: %s" % pyfiles)
    res = pytest.main(["-v", "-x"] + pyfiles)
    print("Result: %s" % res)

    # Return exit result
    return res
