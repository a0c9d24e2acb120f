"""
Food-web templates of the Gotland Basin (central Baltic Sea).

Two variants of the same ecosystem model are provided. Both describe one
year of the food web (fishing mortality, spawning stock biomass, recruitment,
zooplankton, hydrography) plus hidden variables that absorb unmeasured
drivers:

- ``foodweb_all_hidden``: a generic hidden variable linked to every
  measured variable, a hidden clupeid (sprat and herring) variable and a
  hidden cod variable (24 nodes).
- ``foodweb_fish_hidden``: only the clupeid and cod hidden variables
  (23 nodes).

Hidden variables persist across years through self edges; spawning stock
biomass persists too, and recruits feed the older age classes of the next
year.

Functions
---------
foodweb_all_hidden
    Template with generic, clupeid and cod hidden variables.
foodweb_fish_hidden
    Template with clupeid and cod hidden variables.
get_preset
    Look up a preset by name.

Author: Sean Plummer
Date: October 2026
"""

from typing import Callable, Dict, List, Tuple

from .template import TemplateGraph, build_template


# Measured variables, in data-column order after the hidden variables
MEASURED = [
    'FCod', 'FSpr', 'FHer',
    'RV', 'Chla', 'TSpring', 'TSum',
    'SSBCod', 'SSBSpr', 'SSBHer',
    'Ps', 'Tem', 'Ac',
    'Spr0y', 'Her0y', 'Cod0y',
    'Spr1y', 'Her1y',
    'Cod1y', 'Cod2y', 'Cod3y'
]

# Variables with data; all others are always hidden
OBSERVED = [
    'FCod', 'FSpr', 'FHer', 'RV', 'TSum',
    'SSBCod', 'SSBSpr', 'SSBHer', 'Spr1y', 'Her1y', 'Cod2y'
]

CLUPEID_CHILDREN = [
    'FSpr', 'FHer', 'SSBSpr', 'SSBHer', 'Spr0y', 'Her0y', 'Spr1y', 'Her1y'
]


def _fan_out(parent: str, children: List[str]) -> List[Tuple[str, str]]:
    return [(parent, child) for child in children]


def _measured_intra() -> List[Tuple[str, str]]:
    edges = []
    edges += _fan_out('FSpr', ['SSBSpr'])
    edges += _fan_out('FHer', ['SSBHer'])
    edges += _fan_out('FCod', ['SSBCod'])
    edges += _fan_out('RV', ['Cod0y', 'Ps'])
    edges += _fan_out('Chla', ['Ps', 'Ac', 'Tem'])
    edges += _fan_out('TSpring', ['Ps', 'Ac', 'Tem'])
    edges += _fan_out('TSum', ['Spr0y', 'Her0y'])
    edges += _fan_out('SSBSpr', ['Spr0y', 'Cod0y', 'Ps', 'Tem', 'Ac'])
    edges += _fan_out('SSBHer', ['Her0y', 'Ps', 'Tem', 'Ac'])
    edges += _fan_out('SSBCod', ['SSBSpr', 'SSBHer', 'Cod0y'])
    edges += _fan_out('Ps', ['Cod0y'])
    return edges


def _measured_inter() -> List[Tuple[str, str]]:
    return [
        ('SSBHer', 'SSBHer'),
        ('SSBSpr', 'SSBSpr'),
        ('SSBCod', 'SSBCod'),
        ('Her0y', 'Her1y'),
        ('Her1y', 'SSBHer'),
        ('Spr0y', 'Spr1y'),
        ('Spr1y', 'SSBSpr'),
        ('Cod0y', 'Cod1y'),
        ('Cod1y', 'Cod2y'),
        ('Cod2y', 'Cod3y'),
        ('Cod3y', 'SSBCod'),
    ]


def foodweb_all_hidden() -> TemplateGraph:
    """
    Food-web template with generic, clupeid and cod hidden variables.

    Returns
    -------
    template : TemplateGraph
        24 nodes: ``HVGen``, ``HVClu``, ``HVCod`` followed by the measured
        variables.
    """
    names = ['HVGen', 'HVClu', 'HVCod'] + MEASURED
    intra = _measured_intra()
    intra += _fan_out('HVGen', MEASURED)
    intra += _fan_out('HVCod', ['FCod', 'Cod2y', 'SSBCod', 'Cod0y', 'Cod1y', 'Cod3y'])
    intra += _fan_out('HVClu', CLUPEID_CHILDREN)
    inter = [('HVGen', 'HVGen'), ('HVClu', 'HVClu'), ('HVCod', 'HVCod')]
    inter += _measured_inter()
    return build_template(len(names), intra, inter, OBSERVED, names=names)


def foodweb_fish_hidden() -> TemplateGraph:
    """
    Food-web template with clupeid and cod hidden variables only.

    Returns
    -------
    template : TemplateGraph
        23 nodes: ``HVClu``, ``HVCod`` followed by the measured variables.
    """
    names = ['HVClu', 'HVCod'] + MEASURED
    intra = _measured_intra()
    intra += _fan_out('HVCod', ['FCod', 'RV', 'Cod2y', 'SSBCod', 'Cod0y', 'Cod1y'])
    intra += _fan_out('HVClu', CLUPEID_CHILDREN)
    inter = [('HVClu', 'HVClu'), ('HVCod', 'HVCod')]
    inter += _measured_inter()
    return build_template(len(names), intra, inter, OBSERVED, names=names)


PRESETS: Dict[str, Callable[[], TemplateGraph]] = {
    'all_hidden': foodweb_all_hidden,
    'fish_hidden': foodweb_fish_hidden,
}

# Hidden variables whose marginals are exported, with their file stems
HIDDEN_OF_INTEREST: Dict[str, Dict[str, str]] = {
    'all_hidden': {'HVGen': 'GenHV', 'HVClu': 'CluHV', 'HVCod': 'CodHV'},
    'fish_hidden': {'HVClu': 'CluHV', 'HVCod': 'CodHV'},
}


def get_preset(name: str) -> TemplateGraph:
    """Build a preset template by name."""
    if name not in PRESETS:
        raise KeyError(f"Unknown preset '{name}'. Available: {sorted(PRESETS)}")
    return PRESETS[name]()
