"""Multi-stage and subprocess tests; offline, with the network and native build faked."""
