"""
Tests for gear selectivity and fishing mortality.
"""

import numpy as np
import pytest

from pyspectrum.core.exceptions import ConfigurationError
from pyspectrum.core.fishing import (
    get_catchability,
    get_fishing_mort,
    get_selectivity,
    knife_edge_phased,
)
from pyspectrum.core.params import complete_species_params, spectrum_params


class TestKnifeEdgePhased:
    """Test the ramped knife-edge selectivity."""

    def test_profile(self, grid):
        w = grid.w
        sel = knife_edge_phased(w, 1.0, 10.0)

        assert np.all(sel[w < 1.0] == 0.0)
        assert np.all(sel[w >= 10.0] == 1.0)
        assert np.all((sel >= 0.0) & (sel <= 1.0))
        assert np.all(np.diff(sel) >= 0.0)
        assert np.any((sel > 0.0) & (sel < 1.0))

    def test_ramp_endpoints(self, grid):
        w = grid.w
        sel = knife_edge_phased(w, 1.0, 10.0)
        lo = np.flatnonzero(w < 1.0)[-1]
        hi = np.flatnonzero(w < 10.0)[-1]

        assert sel[lo] == 0.0
        assert sel[hi] == 1.0
        np.testing.assert_allclose(np.diff(sel[lo:hi + 1]), 1.0 / (hi - lo))

    def test_equal_sizes_is_step(self, grid):
        sel = knife_edge_phased(grid.w, 5.0, 5.0)
        idx = np.flatnonzero(grid.w < 5.0)[-1]

        assert np.all(sel[:idx + 1] == 0.0)
        assert np.all(sel[idx + 1:] == 1.0)
        np.testing.assert_array_equal(sel, np.where(grid.w < 5.0, 0.0, 1.0))

    def test_size_below_grid(self, grid):
        with pytest.raises(ConfigurationError, match="smallest grid size"):
            knife_edge_phased(grid.w, grid.w[0], 10.0)
        with pytest.raises(ConfigurationError):
            knife_edge_phased(grid.w, 1e-6, 1e-5)

    def test_inverted_sizes(self, grid):
        with pytest.raises(ConfigurationError, match="knife_edge_size2"):
            knife_edge_phased(grid.w, 10.0, 1.0)


class TestSelectivityArrays:
    """Test the species x gear arrays."""

    def test_shapes(self, species_df, grid):
        sp = complete_species_params(species_df, min_w=grid.w[0])
        gears = ("Longline",)

        sel = get_selectivity(sp, grid, gears)
        q = get_catchability(sp, gears)

        assert sel.shape == (3, 1, grid.w.size)
        np.testing.assert_array_equal(q, np.ones((3, 1)))

    def test_multiple_gears(self, species_df, grid):
        df = species_df.copy()
        df["gear"] = ["Purse seine", "Trawl", "Longline"]
        df["catchability"] = [0.5, 1.0, 2.0]
        sp = complete_species_params(df, min_w=grid.w[0])
        gears = ("Purse seine", "Trawl", "Longline")

        sel = get_selectivity(sp, grid, gears)
        q = get_catchability(sp, gears)

        assert np.all(sel[0, 1:] == 0.0)
        assert np.any(sel[0, 0] > 0)
        np.testing.assert_array_equal(np.diag(q), [0.5, 1.0, 2.0])
        assert q[0, 1] == 0.0

    def test_bad_selectivity_names_species(self, species_df, grid):
        df = species_df.copy()
        df.loc[2, "knife_edge_size1"] = 1e-6
        df.loc[2, "knife_edge_size2"] = 1e-5

        with pytest.raises(ConfigurationError, match="Tuna"):
            spectrum_params(df, grid=grid)


class TestFishingMortality:
    """Test catchability x selectivity x effort."""

    def test_zero_effort(self, params):
        f_mort = get_fishing_mort(params, np.zeros(len(params.gears)))

        assert f_mort.shape == (params.n_species, params.grid.w.size)
        np.testing.assert_array_equal(f_mort, 0.0)

    def test_unit_effort_equals_selectivity(self, params):
        f_mort = get_fishing_mort(params, np.ones(len(params.gears)))
        np.testing.assert_allclose(f_mort, params.selectivity[:, 0, :])

    def test_linear_in_effort(self, params):
        f1 = get_fishing_mort(params, np.array([0.3]))
        f2 = get_fishing_mort(params, np.array([0.6]))
        np.testing.assert_allclose(f2, 2 * f1)

    def test_wrong_effort_shape(self, params):
        with pytest.raises(ValueError):
            get_fishing_mort(params, np.ones(3))
