"""
orderseal core: data model, order codec, crypto, canonical encoding, clock.
"""
