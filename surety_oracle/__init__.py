"""
Flight Surety Oracle Service
Registers a pool of oracle accounts with the FlightSuretyApp contract and
answers every OracleRequest addressed to an index those accounts hold.
"""

__version__ = "1.0.0"
