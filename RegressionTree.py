from collections import namedtuple

import numpy as np

from PixelFeatures import SamplePixelPairs

####################### regression tree ############################
# full binary tree stored breadth first: node k tests
#   intensity[splits[k, 0]] - intensity[splits[k, 1]] > thresholds[k]
# and continues at 2k+1 when false, 2k+2 when true. leaves holds one
# (landmark_num, 2) displacement per leaf, already scaled by the learning rate.
Tree=namedtuple('Tree', ['splits', 'thresholds', 'leaves'])

def TreeDepth(tree):
    return (len(tree.thresholds)+1).bit_length()-1

# sum of squared deviation from the mean residual
def ResidualSSE(residuals):
    if len(residuals)==0:
        return 0.
    return float(np.sum(np.square(residuals-residuals.mean(0))))

# best random pixel difference test as (pair, threshold, goes_right), None when no test lowers the residual sse
def FindBestSplit(intensities, residuals, pair_prior, split_test_num, rng):
    n=len(residuals)
    sse=ResidualSSE(residuals)
    if not sse>0.:
        return None
    pairs=SamplePixelPairs(pair_prior, intensities.shape[1], split_test_num, rng)
    diffs=intensities[:, pairs[:, 0]]-intensities[:, pairs[:, 1]]
    thresholds=diffs[rng.randint(n, size=split_test_num), np.arange(split_test_num)]
    right=diffs>thresholds

    right_num=right.sum(0)
    left_num=n-right_num
    total=residuals.sum(0)
    right_sum=right.T.astype(np.float64).dot(residuals)
    left_sum=total-right_sum
    # sse drop of a split is n_l*|mean_l|^2 + n_r*|mean_r|^2 - n*|mean|^2
    right_score=np.zeros(split_test_num)
    left_score=np.zeros(split_test_num)
    np.divide(np.sum(np.square(right_sum), 1), right_num, out=right_score, where=right_num>0)
    np.divide(np.sum(np.square(left_sum), 1), left_num, out=left_score, where=left_num>0)
    gain=left_score+right_score-total.dot(total)/n

    best=int(np.argmax(gain))
    if not gain[best]>1e-12*sse:
        return None
    return pairs[best], thresholds[best], right[:, best]

def FitTree(intensities, residuals, pair_prior, params, rng):
    n=len(residuals)
    if n==0:
        raise ValueError('cannot fit a regression tree without samples')
    assert len(intensities)==n
    flat=residuals.reshape(n, -1)
    split_num=2**params.tree_depth-1

    splits=np.zeros((split_num, 2), dtype=np.int64)
    thresholds=np.full(split_num, np.inf)
    node_samples=[None]*(2*split_num+1)
    forced=np.zeros(2*split_num+1, dtype=bool)
    node_samples[0]=np.arange(n)
    for node in range(split_num):
        inds=node_samples[node]
        split=None
        if not forced[node] and len(inds)>=params.min_samples_split:
            split=FindBestSplit(intensities[inds], flat[inds], pair_prior, params.split_test_num, rng)
        if split is None:
            # leaf: a test that never passes sends all samples left
            node_samples[2*node+1]=inds
            node_samples[2*node+2]=inds[:0]
            forced[2*node+1]=True
            forced[2*node+2]=True
        else:
            pair, threshold, right=split
            splits[node]=pair
            thresholds[node]=threshold
            node_samples[2*node+1]=inds[~right]
            node_samples[2*node+2]=inds[right]

    leaves=np.zeros((split_num+1, flat.shape[1]))
    for leaf in range(split_num+1):
        inds=node_samples[split_num+leaf]
        if len(inds)>0:
            leaves[leaf]=flat[inds].mean(0)
    leaves*=params.learning_rate
    return Tree(splits, thresholds, leaves.reshape(split_num+1, -1, 2))

# leaf reached by every row of intensities
def TreeLeafIndex(tree, intensities):
    split_num=len(tree.thresholds)
    rows=np.arange(len(intensities))
    node=np.zeros(len(intensities), dtype=np.int64)
    for _ in range(TreeDepth(tree)):
        diff=intensities[rows, tree.splits[node, 0]]-intensities[rows, tree.splits[node, 1]]
        node=2*node+1+(diff>tree.thresholds[node])
    return node-split_num

def PredictTree(tree, intensities):
    return tree.leaves[TreeLeafIndex(tree, intensities)]
