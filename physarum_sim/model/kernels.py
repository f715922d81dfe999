"""CPU compute backend: the three per-step stages written with NumPy/SciPy."""

import numpy as np
from scipy.ndimage import convolve, uniform_filter

from ..config import BoundaryPolicy
from .device import DispatchPlan

# Keeps clamped agents strictly inside [0, W) x [0, H)
EDGE_EPSILON = 0.01

# Subnormal trail values no longer shrink under decay
FLUSH_FLOOR = np.finfo(np.float32).tiny


def hash_u32(state: np.ndarray) -> np.ndarray:
    """Stateless integer hash used for per-agent randomness."""
    state = np.asarray(state, dtype=np.uint32).copy()
    state ^= np.uint32(2747636419)
    state *= np.uint32(2654435769)
    state ^= state >> np.uint32(16)
    state *= np.uint32(2654435769)
    state ^= state >> np.uint32(16)
    state *= np.uint32(2654435769)
    return state


def scale_to_unit(state: np.ndarray) -> np.ndarray:
    """Map a uint32 hash to [0, 1]."""
    return state.astype(np.float64) / 4294967295.0


class ComputeBackend:
    """
    Interface of the three compute stages.

    Implementations receive host-visible arrays for the fields and
    device-side record arrays for agents and species, and must leave the
    same snapshots behind at the end of a step.
    """

    def diffuse(self, trail_map: np.ndarray, dt: float,
                evaporation_speed: float, diffusion_speed: float,
                plan: DispatchPlan) -> None:
        raise NotImplementedError

    def colorize(self, trail_map: np.ndarray, color_map: np.ndarray,
                 species: np.ndarray, base_color: np.ndarray,
                 plan: DispatchPlan) -> None:
        raise NotImplementedError

    def update_agents(self, agents: np.ndarray, species: np.ndarray,
                      trail_map: np.ndarray, dt: float, elapsed_time: float,
                      trail_weight: float, boundary: BoundaryPolicy,
                      plan: DispatchPlan) -> None:
        raise NotImplementedError


class NumpyBackend(ComputeBackend):
    """Vectorised CPU implementation of the compute stages."""

    def __init__(self):
        # 3x3 diffusion kernel (normalized)
        self.diffusion_kernel = np.full((3, 3), 1.0 / 9.0, dtype=np.float32)

    def diffuse(self, trail_map, dt, evaporation_speed, diffusion_speed, plan):
        """
        Blur and evaporate the trail in place.

        Formula: T(t+1) = exp(-e * dt) * blend(T, blur(T))
        where blend = (1 - w) * T + w * blur, w = clip(d * dt, 0, 1).
        Edges are reflected, so the blur alone conserves total intensity.
        The blur reads the whole pre-step map, then tiles are blended and
        decayed independently. Cells that decay below the smallest normal
        float32 are flushed to zero.
        """
        weight = float(np.clip(diffusion_speed * dt, 0.0, 1.0))
        decay = float(np.exp(-evaporation_speed * dt))
        if weight == 0.0 and decay == 1.0:
            return

        blurred = None
        if weight > 0.0:
            blurred = np.empty_like(trail_map)
            for c in range(trail_map.shape[2]):
                blurred[:, :, c] = convolve(trail_map[:, :, c], self.diffusion_kernel,
                                            mode='reflect')

        for rows, cols in plan.field_tiles():
            tile = trail_map[rows, cols]
            if blurred is not None:
                tile = (1.0 - weight) * tile + weight * blurred[rows, cols]
            tile = np.clip(tile * decay, 0.0, 1.0)
            tile[tile < FLUSH_FLOOR] = 0.0
            trail_map[rows, cols] = tile

    def colorize(self, trail_map, color_map, species, base_color, plan):
        """
        Map trail intensity to color, tile by tile.

        color = sum_i species_i.color * dot(trail.rgb, mask_i) + base * trail.a
        """
        masks = species['species_mask'].astype(np.float32)     # (S, 3)
        colors = species['color'].astype(np.float32)           # (S, 4)
        # (3, 4): contribution of each trail channel to the output color
        channel_colors = masks.T @ colors
        base = np.asarray(base_color, dtype=np.float32)
        for rows, cols in plan.field_tiles():
            tile = trail_map[rows, cols]
            color_map[rows, cols] = tile[..., :3] @ channel_colors + tile[..., 3:4] * base

    def _sense(self, weighted: np.ndarray, x: np.ndarray, y: np.ndarray,
               angle: np.ndarray, distance: np.ndarray) -> np.ndarray:
        height, width = weighted.shape
        sx = np.clip((x + np.cos(angle) * distance).astype(np.int64), 0, width - 1)
        sy = np.clip((y + np.sin(angle) * distance).astype(np.int64), 0, height - 1)
        return weighted[sy, sx]

    def _pooled_sense_maps(self, trail_map: np.ndarray, species: np.ndarray) -> list:
        """Per species: mask-weighted trail summed over the sensor square."""
        maps = []
        for s in species:
            sense_weight = s['species_mask'].astype(np.float32) * 2.0 - 1.0
            weighted = trail_map[..., :3] @ sense_weight
            size = 2 * int(s['sensor_radius']) + 1
            if size > 1:
                weighted = uniform_filter(weighted, size=size, mode='nearest') * (size * size)
            maps.append(weighted)
        return maps

    def update_agents(self, agents, species, trail_map, dt, elapsed_time,
                      trail_weight, boundary, plan):
        """
        Sense, steer, move and deposit for every agent.

        Sensing reads the trail as it was before this stage; deposits are
        accumulated with an associative add and saturated afterwards, so
        the result does not depend on agent order.
        """
        if len(agents) == 0:
            return
        height, width = trail_map.shape[:2]
        sense_maps = self._pooled_sense_maps(trail_map, species)
        time_seed = np.uint32(int(elapsed_time * 100000) & 0xFFFFFFFF)

        for group in plan.agent_slices():
            chunk = agents[group]
            pos = chunk['position'].astype(np.float64)
            angle = chunk['angle'].astype(np.float64)
            kind = chunk['species_index']
            params = species[kind]
            ids = np.arange(group.start, group.stop, dtype=np.uint32)

            x, y = pos[:, 0], pos[:, 1]
            cell = (np.clip(y, 0, height - 1).astype(np.int64) * width
                    + np.clip(x, 0, width - 1).astype(np.int64)).astype(np.uint32)
            random = hash_u32(cell + hash_u32(ids + time_seed))
            steer = scale_to_unit(random)

            distance = params['sensor_distance'].astype(np.float64)
            sensor_angle = params['sensor_angle'].astype(np.float64)
            forward = np.empty(len(chunk))
            left = np.empty(len(chunk))
            right = np.empty(len(chunk))
            for s, weighted in enumerate(sense_maps):
                sel = kind == s
                if not np.any(sel):
                    continue
                forward[sel] = self._sense(weighted, x[sel], y[sel], angle[sel], distance[sel])
                left[sel] = self._sense(weighted, x[sel], y[sel],
                                        angle[sel] + sensor_angle[sel], distance[sel])
                right[sel] = self._sense(weighted, x[sel], y[sel],
                                         angle[sel] - sensor_angle[sel], distance[sel])

            turn = params['turning_speed'].astype(np.float64) * dt
            keep = (forward > left) & (forward > right)
            worst = (forward < left) & (forward < right)
            to_right = ~keep & ~worst & (right > left)
            to_left = ~keep & ~worst & (left > right)
            angle = np.where(worst, angle + (steer - 0.5) * 2.0 * turn, angle)
            angle = np.where(to_right, angle - steer * turn, angle)
            angle = np.where(to_left, angle + steer * turn, angle)

            speed = params['speed'].astype(np.float64)
            new_x = x + np.cos(angle) * speed * dt
            new_y = y + np.sin(angle) * speed * dt

            if boundary == BoundaryPolicy.CLAMP:
                hit = (new_x < 0) | (new_x >= width) | (new_y < 0) | (new_y >= height)
                new_x = np.clip(new_x, 0.0, width - EDGE_EPSILON)
                new_y = np.clip(new_y, 0.0, height - EDGE_EPSILON)
                bounce = scale_to_unit(hash_u32(random)) * 2.0 * np.pi
                angle = np.where(hit, bounce, angle)
            elif boundary == BoundaryPolicy.WRAP:
                # A coordinate just below the far edge rounds onto it in float32
                new_x = np.mod(new_x, width).astype(np.float32)
                new_y = np.mod(new_y, height).astype(np.float32)
                new_x[new_x >= width] = 0.0
                new_y[new_y >= height] = 0.0

            chunk['position'][:, 0] = new_x
            chunk['position'][:, 1] = new_y
            chunk['angle'] = np.mod(angle, 2.0 * np.pi)

        self._deposit(agents, species, trail_map, dt, trail_weight)

    def _deposit(self, agents, species, trail_map, dt, trail_weight):
        height, width = trail_map.shape[:2]
        pos = agents['position'].astype(np.float64)
        cx = np.rint(pos[:, 0]).astype(np.int64)
        cy = np.rint(pos[:, 1]).astype(np.int64)
        # Rounding may push an in-field agent onto the far edge
        on_field = (pos[:, 0] >= 0) & (pos[:, 0] < width) & (pos[:, 1] >= 0) & (pos[:, 1] < height)
        cx = np.clip(cx[on_field], 0, width - 1)
        cy = np.clip(cy[on_field], 0, height - 1)

        masks = species['species_mask'][agents['species_index'][on_field]].astype(np.float32)
        amount = np.concatenate([masks, np.ones((len(masks), 1), np.float32)], axis=1)
        amount *= np.float32(trail_weight * dt)
        np.add.at(trail_map, (cy, cx), amount)
        np.clip(trail_map, 0.0, 1.0, out=trail_map)
