import pandas as pd
import geopandas as gpd


def verbose_merge(df1, df2, left_on, right_on, how="outer", verbose=True):
    """
    Merges two datasets and prints out merge statistics, while also adding a column
    indicating whether each row came from the left dataframe only, the right dataframe only, or both.

    Args:
        df1 (pd.DataFrame): First dataframe.
        df2 (pd.DataFrame): Second dataframe.
        left_on (str or list): Column(s) to merge on from df1.
        right_on (str or list): Column(s) to merge on from df2.
        how (str): Type of merge ('left', 'right', 'inner', 'outer'). Default is 'outer'.
        verbose (bool): If True, prints merge statistics.

    Returns:
        pd.DataFrame: Merged dataframe with an additional column 'merge_source'
        ('merged', 'left_only' or 'right_only').
    """
    merged_df = df1.merge(df2, left_on=left_on, right_on=right_on, how=how, indicator=True)

    merged_df["merge_source"] = merged_df["_merge"].map({
        "both": "merged",
        "left_only": "left_only",
        "right_only": "right_only"
    }).astype(str)

    if verbose:
        print(f"Total merged dataset size: {len(merged_df)}")
        print(f"Rows successfully merged from both datasets: {(merged_df['_merge'] == 'both').sum()}")
        print(f"Rows from df1 that did not merge: {(merged_df['_merge'] == 'left_only').sum()}")
        print(f"Rows from df2 that did not merge: {(merged_df['_merge'] == 'right_only').sum()}")

    merged_df = merged_df.drop(columns=["_merge"])

    return merged_df


def reorder_columns(df, cols_to_front):
    """
    Reorder the columns of a Pandas DataFrame or GeoPandas GeoDataFrame.
    Columns in ``cols_to_front`` that are absent from ``df`` are skipped.

    Parameters:
    df (pd.DataFrame or gpd.GeoDataFrame): The input dataframe.
    cols_to_front (list): A list of column names to move to the front.

    Returns:
    pd.DataFrame or gpd.GeoDataFrame: A new dataframe with reordered columns.
    """
    if not isinstance(df, (pd.DataFrame, gpd.GeoDataFrame)):
        raise TypeError("Input must be a Pandas DataFrame or a GeoPandas GeoDataFrame")

    front = [col for col in cols_to_front if col in df.columns]
    remaining_cols = [col for col in df.columns if col not in front]

    return df[front + remaining_cols]


def drop_duplicates_qualify(
    df,
    subset_cols,
    order_by=None,
    ascending=True,
    verbose=False
):
    """
    Drops duplicates so that each unique combination of `subset_cols` remains
    with exactly one row. If `order_by` is provided, the single row kept
    is whichever row ranks first (lowest or highest) by `order_by`; NULLs in
    `order_by` rank last.

    Parameters
    ----------
    df : pd.DataFrame
        The input DataFrame.
    subset_cols : list of str
        The column(s) that define uniqueness (akin to SQL PARTITION BY).
    order_by : str, optional
        The column used to order rows within each group. If None, keeps the
        first row of each group in table order.
    ascending : bool, default=True
        If True, keep the row with the smallest `order_by` value in each group.
    verbose : bool, default=False
        If True, prints the number of rows dropped.

    Returns
    -------
    pd.DataFrame
        One row per group of `subset_cols`. The original index is kept.
    """
    original_count = len(df)

    if order_by is None:
        out_df = df.drop_duplicates(subset=subset_cols, keep='first')
    else:
        # stable sort so ties keep table order
        out_df = (
            df.sort_values(by=order_by, ascending=ascending, na_position="last", kind="mergesort")
              .drop_duplicates(subset=subset_cols, keep='first')
        )

    if verbose:
        print(f"Dropped {original_count - len(out_df)} rows from {original_count} rows "
              f"(remaining: {len(out_df)}).")

    return out_df
