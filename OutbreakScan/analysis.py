"""Main class for the prospective outbreak detection analysis"""

import logging

import numpy as np
import pandas as pd

from OutbreakScan.aggregate import (
    add_case_dates,
    district_period_counts,
    state_count_matrix,
    state_period_counts,
)
from OutbreakScan.bayes import default_relrisk_values
from OutbreakScan.errors import InvalidConfiguration
from OutbreakScan.hotelling import hotelling_surveillance
from OutbreakScan.results import alarms, most_likely_cluster, relrisk_posterior_frame
from OutbreakScan.stcd import detect_cluster
from OutbreakScan.surveillance import scan_surveillance
from OutbreakScan.zones import zone_catalog


class ProspectiveAnalysis:
    """Simple helper class running all three detection methods on one data set:
    Hotelling's T^2 on state counts, the Kulldorff and Bayesian scan statistics on
    district counts, and space-time cluster detection on the case events."""

    def __init__(
        self,
        cases,
        district_grid,
        district_coords,
        t2_start=25,
        t2_end=48,
        t2_alpha=1 / 36,
        t2_include_current=True,
        scan_start=None,
        scan_end=None,
        scan_length=6,
        n_mcsim=99,
        scan_alpha=1 / 60,
        outbreak_prob=1e-7,
        relrisk_values=None,
        k_nearest=15,
        pool_policy="accumulate",
        seed=2017,
        stcd_radius=75,
        stcd_epsilon=0.2,
        stcd_threshold=30,
        stcd_type="B",
        stcd_start="2004-03-01",
        stcd_end="2006-01-01",
    ):
        self.cases = cases
        self.district_grid = district_grid
        self.district_coords = district_coords
        self.t2_start = t2_start
        self.t2_end = t2_end
        self.t2_alpha = t2_alpha
        self.t2_include_current = t2_include_current
        self.scan_start = t2_start if scan_start is None else scan_start
        self.scan_end = t2_end if scan_end is None else scan_end
        self.scan_length = scan_length
        self.n_mcsim = n_mcsim
        self.scan_alpha = scan_alpha
        self.outbreak_prob = outbreak_prob
        self.relrisk_values = (
            default_relrisk_values() if relrisk_values is None else np.asarray(relrisk_values)
        )
        self.k_nearest = k_nearest
        self.pool_policy = pool_policy
        self.seed = seed
        self.stcd_radius = stcd_radius
        self.stcd_epsilon = stcd_epsilon
        self.stcd_threshold = stcd_threshold
        self.stcd_type = stcd_type
        self.stcd_start = stcd_start
        self.stcd_end = stcd_end

        if self.t2_start > self.t2_end or self.scan_start > self.scan_end:
            raise InvalidConfiguration("Surveillance periods must start before they end")
        if self.k_nearest < 1:
            raise InvalidConfiguration("k_nearest must be at least 1")

        # results at each stage of pipeline
        self.dated_cases = None
        self.district_counts = None
        self.state_counts = None
        self.catalog = None
        self.t2_results = None
        self.scan_results = None
        self.bayes_results = None
        self.relrisk_posteriors = None
        self.stcd_result = None

    def run(self):
        """Build all results"""
        self.aggregate()
        self.run_hotelling()
        self.run_scan()
        self.run_stcd()

    def aggregate(self):
        """Monthly district and state counts, and the zone catalog"""
        self.dated_cases = add_case_dates(self.cases)
        self.district_counts = district_period_counts(self.dated_cases, self.district_grid)
        self.state_counts = state_period_counts(self.district_counts)

        coords = self.district_coords.drop(columns=["location"], errors="ignore").merge(
            self.district_counts[["tile", "location"]].drop_duplicates(), on="tile", how="inner"
        )
        if len(coords) != self.district_counts["location"].nunique():
            raise InvalidConfiguration("Every district needs centroid coordinates")
        self.catalog = zone_catalog(coords, k=min(self.k_nearest, len(coords)))

    def run_hotelling(self):
        self._require("state_counts")
        self.t2_results = self._with_dates(
            hotelling_surveillance(
                state_count_matrix(self.state_counts),
                start=self.t2_start,
                end=self.t2_end,
                alpha=self.t2_alpha,
                include_current=self.t2_include_current,
            )
        )

    def run_scan(self):
        self._require("district_counts")
        res = scan_surveillance(
            self.district_counts,
            self.catalog,
            start=self.scan_start,
            end=self.scan_end,
            scan_length=self.scan_length,
            n_mcsim=self.n_mcsim,
            alpha=self.scan_alpha,
            outbreak_prob=self.outbreak_prob,
            relrisk_values=self.relrisk_values,
            pool_policy=self.pool_policy,
            seed=self.seed,
        )
        self.scan_results = res["scan"]
        self.bayes_results = res["bayes"]
        self.relrisk_posteriors = res["relrisk_posteriors"]

    def run_stcd(self):
        self._require("district_counts")
        self.stcd_result = detect_cluster(
            self.dated_cases,
            radius=self.stcd_radius,
            epsilon=self.stcd_epsilon,
            threshold=self.stcd_threshold,
            case_type=self.stcd_type,
            start_date=self.stcd_start,
            end_date=self.stcd_end,
        )

    def t2_alarms(self):
        self._require("t2_results")
        return alarms(self.t2_results, "obs", "crit")

    def scan_alarms(self):
        self._require("scan_results")
        return alarms(self.scan_results, "score", "crit")

    def most_likely_cluster(self):
        """Districts in the highest scoring cluster of the surveillance period"""
        self._require("scan_results")
        return most_likely_cluster(self.scan_results, self.catalog, self.district_counts)

    def relrisk_distributions(self):
        self._require("relrisk_posteriors")
        return relrisk_posterior_frame(self.relrisk_posteriors)

    def model_settings(self):
        settings = self.__dict__.copy()
        for key in [
            "cases",
            "dated_cases",
            "district_grid",
            "district_coords",
            "district_counts",
            "state_counts",
            "catalog",
            "t2_results",
            "scan_results",
            "bayes_results",
            "relrisk_posteriors",
            "stcd_result",
        ]:
            del settings[key]
        logging.info("Model settings: %s", settings)
        return settings

    def _with_dates(self, results: pd.DataFrame) -> pd.DataFrame:
        dates = self.district_counts.drop_duplicates("time")[["time", "date"]]
        return results.merge(dates, on="time", how="left")

    def _require(self, attribute):
        if getattr(self, attribute) is None:
            raise TypeError("Results not populated. Call `run()` first.")
