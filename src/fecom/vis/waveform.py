import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path

from fecom.data.hits import CaloHit

def save_waveform_png(hit: CaloHit, out_png: str | Path, title: str | None = None) -> str:
    """Plot the raw samples of one calo hit (ADC counts vs sample index)."""
    samples = np.asarray(hit.waveform, dtype=np.int32)
    out_png = str(out_png)

    plt.figure()
    plt.step(np.arange(samples.size), samples, where="mid")
    plt.xlabel("sample")
    plt.ylabel("ADC")
    plt.title(title or f"trigger {hit.trigger_id} / calo hit {hit.hit_id} / channel {hit.channel}")
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()
    return out_png
