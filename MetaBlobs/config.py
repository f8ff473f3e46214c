"""
Scene Specifications
====================

Construction parameters of a :class:`MetaBlobs.scene.Scene`, as a typed
dictionary with defaults, loadable from a ``specs.json`` file.

Example ``specs.json``::

    {
        "resolution": 32,
        "num_balls": 8,
        "iso_value": 0.2
    }

Keys missing from the file keep their default value.
"""

import json
import logging
import os
import typing

import MetaBlobs

logger = logging.getLogger(MetaBlobs.__name__)

specifications_filename = "specs.json"


class SceneSpecs(typing.TypedDict, total=False):
    """
    Parameters of a metaball scene.

    - `grid_min`, `grid_max` (list[float]): corners of the sampled box.
    - `resolution` (int): cells per grid axis.
    - `iso_value` (float): surface threshold of the field.
    - `num_balls` (int): balls created by ``Scene.populate``.
    - `ball_radius` (float): influence radius of populated balls.
    - `spawn_extent` (float): balls spawn uniformly in ``[-e, e]^3``.
    - `attractor` (list[float]): point the balls are pulled toward.
    - `attraction` (float): strength of that pull.
    - `max_triangles` (int | None): triangle buffer capacity, None for the
      worst case of the grid.
    - `normal_mode` (str): "grid" or "field", see ``MarchingCubes``.
    - `surface_offset` (list[float]): world translation of the surface.
    - `seed` (int | None): seed for ball placement.
    - `device` (str): torch device of grid and buffers.
    """

    grid_min: list[float]
    grid_max: list[float]
    resolution: int
    iso_value: float
    num_balls: int
    ball_radius: float
    spawn_extent: float
    attractor: list[float]
    attraction: float
    max_triangles: int | None
    normal_mode: str
    surface_offset: list[float]
    seed: int | None
    device: str


DEFAULT_SCENE_SPECS: SceneSpecs = {
    "grid_min": [-100.0, -100.0, -100.0],
    "grid_max": [100.0, 100.0, 100.0],
    "resolution": 64,
    "iso_value": 0.1,
    "num_balls": 32,
    "ball_radius": 12.0,
    "spawn_extent": 85.0,
    "attractor": [0.0, 0.0, 0.0],
    "attraction": 100.0,
    "max_triangles": None,
    "normal_mode": "grid",
    "surface_offset": [0.0, 100.0, 0.0],
    "seed": None,
    "device": "cpu",
}


def make_scene_specs(overrides: dict | None = None) -> SceneSpecs:
    """Merge ``overrides`` over the defaults.

    Raises
    ------
    ValueError
        If ``overrides`` contains keys that are not scene parameters.
    """
    overrides = {} if overrides is None else dict(overrides)
    unknown = sorted(set(overrides) - set(SceneSpecs.__annotations__))
    if unknown:
        raise ValueError(f"Unknown scene specification keys: {unknown}")
    specs = dict(DEFAULT_SCENE_SPECS)
    specs.update(overrides)
    return specs


def load_scene_specifications(path) -> SceneSpecs:
    """Load scene specifications from a JSON file.

    Parameters
    ----------
    path : str or os.PathLike
        Either the JSON file itself or a directory containing
        ``specs.json``.
    """
    filename = os.fspath(path)
    if os.path.isdir(filename):
        filename = os.path.join(filename, specifications_filename)

    if not os.path.isfile(filename):
        raise FileNotFoundError(f"No scene specifications file found at {filename}")

    with open(filename) as f:
        overrides = json.load(f)
    if not isinstance(overrides, dict):
        raise ValueError(f"Scene specifications in {filename} must be a JSON object")
    logger.debug(f"Loaded scene specifications from {filename}")
    return make_scene_specs(overrides)
