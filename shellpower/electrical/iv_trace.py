"""IV curve samples and the scalars derived from them."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray


@dataclass(frozen=True)
class IVTrace:
    """Current/voltage samples ordered by ascending voltage.

    The first sample is the short-circuit point (V = 0) and the last the
    open-circuit point (I = 0).
    """

    voltages: NDArray[np.float64]
    currents: NDArray[np.float64]
    isc: float
    voc: float
    imp: float
    vmp: float
    pmp: float
    fill_factor: float

    @classmethod
    def from_samples(cls, voltages: ArrayLike, currents: ArrayLike) -> IVTrace:
        v = np.array(voltages, dtype=np.float64)
        i = np.array(currents, dtype=np.float64)
        if v.size == 0:
            return cls.empty()
        v.setflags(write=False)
        i.setflags(write=False)

        power = v * i
        k = int(np.argmax(power))
        isc = float(i[0])
        voc = float(v[-1])
        pmp = float(power[k])
        denom = isc * voc
        return cls(
            voltages=v,
            currents=i,
            isc=isc,
            voc=voc,
            imp=float(i[k]),
            vmp=float(v[k]),
            pmp=pmp,
            fill_factor=pmp / denom if denom > 0.0 else 0.0,
        )

    @classmethod
    def empty(cls) -> IVTrace:
        """All-zero trace: a single point at the origin."""
        return cls.from_samples([0.0], [0.0])

    @property
    def powers(self) -> NDArray[np.float64]:
        return self.voltages * self.currents
