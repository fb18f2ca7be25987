import cv2
import numpy as np
from joblib import Parallel, delayed
from scipy.spatial.distance import cdist

from ShapeSpace import EstimateSimilarity, LinearPart
import Params

####################### pixel coordinates ############################
# draw random positions around the mean shape and index them by the nearest landmark
def SamplePixelCoordinates(mean_shape, pixel_num, rng, margin=0.1):
    lo=mean_shape.min(0)
    hi=mean_shape.max(0)
    pad=(hi-lo)*margin
    coords=rng.uniform(lo-pad, hi+pad, size=(pixel_num, 2))
    landmarks=np.argmin(cdist(coords, mean_shape), 1)
    offsets=coords-mean_shape[landmarks]
    return coords, landmarks, offsets

# probability of each ordered pair (u, v) at u*len(coords)+v, proportional to exp(-lambda*|u-v|)
def PairPrior(coords, exponential_lambda):
    dist=cdist(coords, coords)
    n=len(coords)
    if n>1:
        # shift by the smallest distance so exp never underflows to all zeros
        dmin=np.min(dist[~np.eye(n, dtype=bool)])
        prior=np.exp(-exponential_lambda*(dist-dmin))
        np.fill_diagonal(prior, 0.)
    else:
        prior=np.ones((1, 1))
    prior/=prior.sum()
    return prior.ravel()

# draw $num coordinate index pairs from the prior
def SamplePixelPairs(pair_prior, pixel_num, num, rng):
    flat=rng.choice(pair_prior.size, size=num, p=pair_prior)
    return np.column_stack(np.unravel_index(flat, (pixel_num, pixel_num)))

####################### projection ############################
# rotation and scale from the mean shape onto every estimate
def ShapeTransforms(mean_shape, estimates):
    linears=np.zeros((len(estimates), 2, 2))
    for i, estimate in enumerate(estimates):
        linears[i]=LinearPart(EstimateSimilarity(mean_shape, estimate))
    return linears

# transform the random positions to the image of a sample
def ProjectPixelCoordinates(landmarks, offsets, estimate, linear, rect_mat):
    pts=estimate[landmarks]+offsets.dot(linear.T)
    return pts.dot(rect_mat[:2, :2].T)+rect_mat[:2, 2]

# bilinear lookup, positions outside the image read the nearest border pixel
def ReadIntensities(img, pts):
    map_x=np.ascontiguousarray(pts[:, 0], dtype=np.float32).reshape(1, -1)
    map_y=np.ascontiguousarray(pts[:, 1], dtype=np.float32).reshape(1, -1)
    values=cv2.remap(img, map_x, map_y, cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE)
    return values.reshape(-1).astype(np.float64)

# intensities table, one row per sample and one column per pool coordinate
def ExtractIntensities(images, rect_mats, samples, linears, landmarks, offsets, n_jobs=Params.param_n_jobs):
    n=len(samples.idx)
    if n==0:
        return np.zeros((0, len(landmarks)))

    def ExtractChunk(inds):
        rows=[]
        for i in inds:
            img_ind=samples.idx[i]
            pts=ProjectPixelCoordinates(landmarks, offsets, samples.estimates[i], linears[i], rect_mats[img_ind])
            rows.append(ReadIntensities(images[img_ind], pts))
        return rows

    if n_jobs==1:
        rows=ExtractChunk(range(n))
    else:
        chunks=np.array_split(np.arange(n), min(n, 4*max(1, abs(n_jobs))))
        results=Parallel(n_jobs=n_jobs, prefer='threads')(delayed(ExtractChunk)(c) for c in chunks)
        rows=[row for chunk in results for row in chunk]
    intensities=np.array(rows)
    assert intensities.shape==(n, len(landmarks))
    return intensities
