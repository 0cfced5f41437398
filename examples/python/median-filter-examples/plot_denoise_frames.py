"""
Removing salt-and-pepper noise from a sequence of frames
========================================================

This script corrupts a few copies of the camera image with impulse noise and
denoises them one after another through a single buffer pool, the way a
video pipeline would. The pool is created once for the frame size, so no
device memory is allocated inside the loop.
"""

import matplotlib.pyplot as plt
import numpy as np
from skimage import data

from cumedian import Status, api

camera = data.camera()
height, width = camera.shape
rng = np.random.default_rng(0)

frames = []
for amount in (0.02, 0.05, 0.1):
    noisy = camera.copy()
    mask = rng.random(camera.shape) < amount
    noisy[mask] = rng.choice(np.array([0, 255], dtype=np.uint8), mask.sum())
    frames.append(noisy)

pool = api.cuda_init_buffer_pool(width, height)
denoised = []
for frame in frames:
    out = np.empty_like(frame)
    status = api.cuda_median_filter_with_pool(pool, frame, width, height, 5, out)
    if status != Status.SUCCESS:
        raise RuntimeError(f"median filter failed with status {status!r}")
    denoised.append(out)
print(pool.stats_snapshot())
api.cuda_cleanup_buffer_pool(pool)

fig, axes = plt.subplots(2, len(frames), figsize=(9, 6))
for col, (noisy, clean) in enumerate(zip(frames, denoised)):
    axes[0, col].imshow(noisy, cmap='gray')
    axes[1, col].imshow(clean, cmap='gray')
for ax in axes.ravel():
    ax.axis('off')
axes[0, 0].set_title('noisy')
axes[1, 0].set_title('median, 5x5')
plt.tight_layout()
plt.show()
