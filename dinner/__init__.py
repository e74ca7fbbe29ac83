"""Describes the CoDinner domain. Centres around the `DinnerGroup`.

Why is this hard?

- Restaurant facts come from an external place provider.
  Calls are slow and metered so they are cached for a day.
- Attendance is the opposite. It must be live on every read.
- A person may only be in one dinner group at a time.
- A group with nobody in it must not exist.

The invariants are held by unique constraints in the store, not by locks,
so they still hold with several processes serving requests.
"""
